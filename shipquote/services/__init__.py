# Services layer: aggregation, label/tracking resolution, storage
