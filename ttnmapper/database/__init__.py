"""Database models, connection handling and stores for gateways, packets and aggregates."""