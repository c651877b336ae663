"""LoRaWAN coverage mapping: validation, storage, aggregation and radar layers."""

__version__ = "0.1.0"