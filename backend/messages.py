"""
Localized strings for validation and availability messages.

Keys follow the frontend dictionary so the same catalog can be served to
the UI. Placeholders use `{name}` and are filled by `translate()`.
"""

DEFAULT_LANG = "it"

MESSAGES = {
    "it": {
        "Obbligatori": "Obbligatori",
        "Facoltativi": "Facoltativi",
        "Fuori Piano": "Fuori Piano",
        "1": "1",
        "2": "2",
        "A": "A",
        "B": "B",
        "C": "C",

        "mandatory_incomplete": "Obbligatori: Piano incompleto",
        "total_cfu_status": "Totale: {current}/{min} CFU",
        "table_missing_cfu": "Tabella {table}: Mancano {missing} CFU",
        "sum_bc_label": "Somma Tabelle B + C",
        "sum_bc_missing": "Somma delle tabelle B e C insufficiente: mancano {missing} CFU",

        "available_from": "Disponibile dal {date}",
        "next_activation_even": "Prossima attivazione: Anni Pari (es. 2026/27)",
        "next_activation_odd": "Prossima attivazione: Anni Dispari (es. 2027/28)",

        "csv_mandatory": "Mandatory",
        "csv_extra": "Extra",
        "csv_curricolar": "Curricolar",
    },
    "en": {
        "Obbligatori": "Mandatory",
        "Facoltativi": "Optional",
        "Fuori Piano": "Out of Plan",
        "1": "1",
        "2": "2",
        "A": "A",
        "B": "B",
        "C": "C",

        "mandatory_incomplete": "Mandatory: Plan incomplete",
        "total_cfu_status": "Total: {current}/{min} CFU",
        "table_missing_cfu": "Table {table}: Missing {missing} CFU",
        "sum_bc_label": "Sum Tables B + C",
        "sum_bc_missing": "Sum of tables B and C insufficient: missing {missing} CFU",

        "available_from": "Available from {date}",
        "next_activation_even": "Next activation: Even Years (e.g. 2026/27)",
        "next_activation_odd": "Next activation: Odd Years (e.g. 2027/28)",

        "csv_mandatory": "Mandatory",
        "csv_extra": "Extra",
        "csv_curricolar": "Curricolar",
    },
}


def normalize_lang(lang) -> str:
    code = str(lang or "").strip().lower()
    return code if code in MESSAGES else DEFAULT_LANG


def translate(key: str, lang: str = DEFAULT_LANG, **params) -> str:
    """Return the localized text for `key`, or the key itself when unknown."""
    text = MESSAGES[normalize_lang(lang)].get(key)
    if text is None:
        return key
    for name, value in params.items():
        text = text.replace(f"{{{name}}}", str(value))
    return text
