"""Pure helpers for domain rules and request throttling."""
