"""fanrun: run one command or script across many hosts over SSH."""

__version__ = "0.1.0"
