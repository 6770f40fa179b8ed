"""Domain entities shared by the assessment engine."""
