"""BetScope - User management: profile, password, preferences, quotas, admin status."""
