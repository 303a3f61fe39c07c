"""Real-time messaging core for a buyer-seller marketplace."""
