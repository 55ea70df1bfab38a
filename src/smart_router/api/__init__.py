"""HTTP surface: chat, preferences, analytics and health routes."""
