"""Core subsystems: hierarchy preprocessing, manifest persistence, config, logging."""
