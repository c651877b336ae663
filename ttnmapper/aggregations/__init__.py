"""Coverage aggregations: grid cells and radar beams per antenna."""