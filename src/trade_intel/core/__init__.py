"""Domain models, enums, configuration, clocks and collaborator protocols."""
