"""AOV Insights - order value analytics for e-commerce workspaces"""

__version__ = "1.0.0"
