from .all_models import AiUsage, Outfit, OutfitItem, Product, StyleGeneration

__all__ = [
    "Product",
    "StyleGeneration",
    "Outfit",
    "OutfitItem",
    "AiUsage",
]
