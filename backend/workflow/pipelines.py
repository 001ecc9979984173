"""Built-in workflow stage lists."""

# Reset, clean the text, then link everything else in two parallel waves.
DB_PROCESSING_STAGES: list = [
    "resetCases",
    "parseInvalidCharacters",
    {"parallel": [
        "parseFootnotes",
        "parseEmptyCitations",
    ]},
    {"parallel": [
        "parseCourts",
        "parseCaseToCase",
        "parseLegislationToCases",
    ]},
]
