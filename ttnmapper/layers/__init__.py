"""Map layers rendered from aggregated coverage data."""