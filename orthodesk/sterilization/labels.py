"""Package label geometry and text.

Sheet formats are US Letter (8.5 x 11 in) label stock measured from the
actual sheets. Positions are in inches from the top-left page corner.
"""

from dataclasses import dataclass
from typing import NamedTuple

from .models import CycleType

LABEL_SIZES = {
    "4x2": {"width": 4, "height": 2, "width_px": 384, "height_px": 192, "name": 'Staples Shipping (4" x 2")'},
    "2.625x1": {"width": 2.625, "height": 1, "width_px": 252, "height_px": 96, "name": 'Staples Address (2-5/8" x 1")'},
    "2x1": {"width": 2, "height": 1, "width_px": 192, "height_px": 96, "name": 'Thermal 2" x 1"'},
    "2x2": {"width": 2, "height": 2, "width_px": 192, "height_px": 192, "name": 'Thermal 2" x 2"'},
    "2x4": {"width": 2, "height": 4, "width_px": 192, "height_px": 384, "name": 'Thermal 2" x 4"'},
    "4x6": {"width": 4, "height": 6, "width_px": 384, "height_px": 576, "name": 'Thermal 4" x 6"'},
}

PAGE_WIDTH_IN = 8.5
PAGE_HEIGHT_IN = 11


@dataclass(frozen=True)
class SheetFormat:
    name: str
    sku: str
    labels_per_sheet: int
    columns: int
    rows: int
    label_width: float
    label_height: float
    margin_top: float
    margin_left: float
    gap_horizontal: float
    gap_vertical: float
    qr_size: int


SHEET_FORMATS = {
    "4x2": SheetFormat(
        name='Staples Shipping 4" x 2"',
        sku="ST18060-CC",
        labels_per_sheet=10,
        columns=2,
        rows=5,
        label_width=4,
        label_height=2,
        margin_top=0.512,
        margin_left=0.157,
        gap_horizontal=0.186,
        gap_vertical=0,
        qr_size=200,
    ),
    "2.625x1": SheetFormat(
        name='Staples Address 2-5/8" x 1"',
        sku="ST18054-CC",
        labels_per_sheet=30,
        columns=3,
        rows=10,
        label_width=2.625,
        label_height=1,
        margin_top=0.5,
        margin_left=0.1875,
        gap_horizontal=0.125,
        gap_vertical=0,
        qr_size=100,
    ),
}


class LabelPosition(NamedTuple):
    page: int
    row: int
    column: int
    x_in: float
    y_in: float


def get_sheet_format(name: str) -> SheetFormat:
    try:
        return SHEET_FORMATS[name]
    except KeyError:
        raise ValueError(f"Unknown label sheet format '{name}'. Choose one of: {', '.join(SHEET_FORMATS)}")


def label_positions(sheet_format: str, count: int, start_position: int = 0) -> list[LabelPosition]:
    """Place ``count`` labels row-major across as many pages as needed.

    ``start_position`` skips slots on the first page so a partially used
    sheet can be fed back through the printer.
    """
    fmt = get_sheet_format(sheet_format)
    if not 0 <= start_position < fmt.labels_per_sheet:
        raise ValueError(f"start_position must be between 0 and {fmt.labels_per_sheet - 1}")
    if count < 0:
        raise ValueError("count must not be negative")

    positions = []
    page = 0
    slot = start_position
    for _ in range(count):
        if slot >= fmt.labels_per_sheet:
            page += 1
            slot = 0
        row, column = divmod(slot, fmt.columns)
        positions.append(LabelPosition(
            page=page,
            row=row,
            column=column,
            x_in=round(fmt.margin_left + column * (fmt.label_width + fmt.gap_horizontal), 4),
            y_in=round(fmt.margin_top + row * (fmt.label_height + fmt.gap_vertical), 4),
        ))
        slot += 1
    return positions


_CYCLE_TYPE_LABELS = {
    CycleType.STEAM_GRAVITY: "Steam Gravity",
    CycleType.STEAM_PREVACUUM: "Steam Pre-Vac",
    CycleType.STEAM_FLASH: "Flash",
    CycleType.CHEMICAL: "Chemical",
    CycleType.DRY_HEAT: "Dry Heat",
    CycleType.VALIDATION: "Validation",
}


def cycle_type_display(cycle_type: str) -> str:
    """Short cycle type for labels. Unknown types are returned unchanged."""
    return _CYCLE_TYPE_LABELS.get(cycle_type, cycle_type)


def format_cycle_params(temperature=None, exposure_time=None) -> str:
    """'134°C / 4min'. Missing halves are dropped."""
    parts = []
    if temperature:
        parts.append(f"{round(float(temperature))}°C")
    if exposure_time:
        parts.append(f"{exposure_time}min")
    return " / ".join(parts)
