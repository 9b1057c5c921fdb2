from __future__ import annotations

from .models import ExtractionStrategy, FieldDescriptor

# Positional column layout of a data row. Column reordering on the target
# page is not detected here; see FieldMiner(layout=...).
FIELD_DESCRIPTORS: tuple[FieldDescriptor, ...] = (
    FieldDescriptor("name", 1, ExtractionStrategy.ANCHOR_NESTED_TEXT, "Name"),
    FieldDescriptor("jobTitle", 2, ExtractionStrategy.PLAIN_TEXT, "Job title"),
    FieldDescriptor("companyName", 3, ExtractionStrategy.PLAIN_TEXT, "Company name"),
    FieldDescriptor("email", 4, ExtractionStrategy.ALTERNATE_STATE, "Email", alternate_field="emailRequiresAccess"),
    FieldDescriptor(
        "phoneRequestLink",
        5,
        ExtractionStrategy.ALTERNATE_STATE,
        "Phone",
        alternate_field="phoneVisible",
    ),
    FieldDescriptor("linkedIn", 7, ExtractionStrategy.LINK_ATTRIBUTE, "LinkedIn link"),
    FieldDescriptor("location", 9, ExtractionStrategy.PLAIN_TEXT, "Location"),
    FieldDescriptor("employeeCount", 10, ExtractionStrategy.PLAIN_TEXT, "Employee count"),
    FieldDescriptor("nicheTags", 12, ExtractionStrategy.PLAIN_TEXT, "Niche/industry tags"),
)

CELL_LAYOUT: dict[int, str] = {descriptor.cell_index: descriptor.field for descriptor in FIELD_DESCRIPTORS}


def descriptor_for(field_name: str) -> FieldDescriptor | None:
    for descriptor in FIELD_DESCRIPTORS:
        if descriptor.field == field_name:
            return descriptor
    return None
