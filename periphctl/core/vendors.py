"""Fallback manufacturer names for devices without a readable string descriptor."""

from __future__ import annotations

VENDOR_NAMES: dict[int, str] = {
    # scanners
    0x05E0: "Symbol Technologies (Zebra)",
    0x0C2E: "Honeywell",
    0x0536: "Hand Held Products",
    0x0581: "Racal Data Group",
    0x05F9: "Datalogic",
    0x080C: "Datalogic",
    0x1EAB: "Newland",
    # keyboards
    0x09DA: "A-FOUR TECH CO., LTD.",
    0x1C4F: "Beijing Sigmachip Co., Ltd.",
    0x046D: "Logitech",
    0x045E: "Microsoft",
    0x05AC: "Apple",
    0x413C: "Dell",
    0x17EF: "Lenovo",
    0x03F0: "HP",
    0x1532: "Razer",
    0x1B1C: "Corsair",
    0x3434: "Keychron",
    0x046A: "Cherry",
    # printers
    0x04B8: "Epson",
    0x04E8: "Samsung",
    0x04A9: "Canon",
    0x067B: "Prolific",
    0x0416: "Xprinter",
    0x0519: "Gprinter",
    # smart card readers
    0x072F: "Advanced Card Systems",
    0x076B: "OmniKey",
    0x08E6: "Gemalto",
    # HID controller chips
    0x1F3A: "Allwinner Technology",
    0x1A86: "QinHeng Electronics",
    0x0483: "STMicroelectronics",
    0x1A40: "Terminus Technology",
    0x04D9: "Holtek Semiconductor",
    0x1A2C: "China Resource Semico",
    0x062A: "MosArt Semiconductor",
    0x258A: "SINO WEALTH",
    0x04B4: "Cypress Semiconductor",
}


def vendor_name(vendor_id: int) -> str | None:
    return VENDOR_NAMES.get(vendor_id)
