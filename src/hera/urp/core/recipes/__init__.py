"""Recipe subsystem: registry, YAML loading and parameter binding."""
from hera.urp.core.recipes.binding import RecipeBinder, placeholders, render
from hera.urp.core.recipes.config import load_primitives, load_recipes, parse_recipe
from hera.urp.core.recipes.registry import RecipeRegistry

__all__ = [
    "RecipeBinder", "placeholders", "render",
    "load_primitives", "load_recipes", "parse_recipe",
    "RecipeRegistry",
]
