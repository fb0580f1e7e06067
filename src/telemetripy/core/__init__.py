"""Framework-independent domain: models, ports, stores, pipelines and the hub."""
