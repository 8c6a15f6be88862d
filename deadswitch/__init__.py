"""Dead man's switch: планировщик раскрытия с гарантией at-most-once."""

__version__ = "0.1.0"
