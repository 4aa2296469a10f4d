"""Abstract provider contracts.  Concrete adapters live in ``ragchat.providers``."""
