"""BetScope - Request gateway: route policies and HTTP middleware."""
