"""GeoDash: geospatial file ingestion, overlay state and spatial queries."""
