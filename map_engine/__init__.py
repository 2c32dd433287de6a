"""Map Engine: personal spending drawn as a 3D neighborhood."""

__all__ = [
    "config",
    "errors",
    "models",
    "db",
    "store",
    "analytics",
    "categorizer",
    "geometry",
    "scene",
    "storage",
    "extraction",
    "analysis",
    "session",
    "pipeline",
    "reports",
    "seed",
    "webapp",
]

__version__ = "0.1.0"
