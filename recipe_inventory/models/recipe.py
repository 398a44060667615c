from tortoise import fields, models
import uuid


class Recipe(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    # One recipe per product
    product = fields.OneToOneField("models.Product", related_name="recipe")
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    lines: fields.ReverseRelation["RecipeLine"]

    class Meta:
        table = "recipes"


class RecipeLine(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    recipe = fields.ForeignKeyField("models.Recipe", related_name="lines", on_delete=fields.CASCADE)
    ingredient = fields.ForeignKeyField("models.Ingredient", related_name="recipe_lines", on_delete=fields.RESTRICT)
    quantity_required = fields.DecimalField(max_digits=14, decimal_places=4)
    unit = fields.CharField(max_length=32) # Always the ingredient's canonical unit once saved

    class Meta:
        table = "recipe_lines"
        unique_together = (("recipe", "ingredient"),)
        indexes = [
            ("ingredient_id",),  # "Is this ingredient used anywhere?" checks
        ]
