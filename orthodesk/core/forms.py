"""Form helpers for JSON APIs."""

from django import forms
from django.core.exceptions import ValidationError

from .exceptions import ValidationFailed


class StringListField(forms.Field):
    """A JSON array of strings, each at most ``item_max_length`` long."""

    def __init__(self, *, item_max_length=500, max_items=None, **kwargs):
        self.item_max_length = item_max_length
        self.max_items = max_items
        kwargs.setdefault("required", False)
        super().__init__(**kwargs)

    def to_python(self, value):
        if value in (None, ""):
            return []
        if isinstance(value, str):
            return [value]
        if not isinstance(value, (list, tuple)):
            raise ValidationError("Expected a list of strings.")
        items = []
        for item in value:
            if not isinstance(item, str):
                raise ValidationError("Expected a list of strings.")
            if len(item) > self.item_max_length:
                raise ValidationError(
                    f"Items must be at most {self.item_max_length} characters."
                )
            items.append(item.strip())
        return [item for item in items if item]

    def validate(self, value):
        if self.required and not value:
            raise ValidationError(self.error_messages["required"], code="required")
        if self.max_items is not None and len(value) > self.max_items:
            raise ValidationError(f"At most {self.max_items} items allowed.")


def clean_form(form_class, data: dict, **kwargs) -> dict:
    """Validate data with form_class and return cleaned_data.

    Raises:
        ValidationFailed: With per-field messages
    """
    form = form_class(data, **kwargs)
    if not form.is_valid():
        raise ValidationFailed.from_form(form)
    return form.cleaned_data


def clean_partial(form_class, data: dict, **kwargs) -> dict:
    """Validate only the keys present in data (PATCH semantics).

    Required-field errors for absent keys are ignored. Form-level
    clean() errors are not applied.
    """
    form = form_class(data, **kwargs)
    form.is_valid()
    errors = {k: v for k, v in form.errors.items() if k in data}
    if errors:
        raise ValidationFailed(
            "Invalid input",
            details={field: [str(e) for e in errs] for field, errs in errors.items()},
        )
    return {k: form.cleaned_data[k] for k in data if k in form.cleaned_data}
