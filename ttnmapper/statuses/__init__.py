"""Gateway status feeds and routing policy conversion for the supported networks."""