"""timelens — client-side consistency layer of a desktop time tracker."""

__version__ = "0.1.0"
