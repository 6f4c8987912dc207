"""Domain services: entity resolution, follow-ups, activity listings and templates."""
