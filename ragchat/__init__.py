"""ragchat: retrieval-augmented chat over local documents."""

__version__ = "0.1.0"
