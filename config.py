# Configuration settings for the Slovenia Statistics Map App
import os
from pathlib import Path

DATA_DIR = Path(os.environ.get("SLOSTAT_DATA_DIR", "data"))

# Data Files
MUNICIPALITY_CSV = Path(os.environ.get("SLOSTAT_MUNICIPALITY_CSV", DATA_DIR / "Obcine_z_napovedjo.csv"))
REGION_CSV = Path(os.environ.get("SLOSTAT_REGION_CSV", DATA_DIR / "Regije_z_napovedjo.csv"))

# CSV columns
YEAR_COLUMN = "leto"
MUNICIPALITY_COLUMN = "obcina"
REGION_COLUMN = "regija"
MISSING_SENTINEL = "z"  # statistically suppressed value

# Geometry (local path or http(s) URL)
MUNICIPALITY_GEOJSON = os.environ.get("SLOSTAT_MUNICIPALITY_GEOJSON", str(DATA_DIR / "obcine.geojson"))
REGION_GEOJSON = os.environ.get("SLOSTAT_REGION_GEOJSON", str(DATA_DIR / "regije.geojson"))
MUNICIPALITY_GEOJSON_URL = "https://raw.githubusercontent.com/stefanb/gurs-rpe/master/obcine.geojson"
GEOMETRY_TIMEOUT = float(os.environ.get("SLOSTAT_GEOMETRY_TIMEOUT", 30))

# Feature name properties per layer
MUNICIPALITY_NAME_PROPERTIES = ("OB_UIME",)
REGION_NAME_PROPERTIES = ("SR_UIME", "NAME_1")

# Map Settings - Slovenia Center
DEFAULT_LAT = 46.119944
DEFAULT_LON = 14.815333
DEFAULT_ZOOM = 8  # Whole country, region layer
ENTITY_ZOOM = 10  # Zoom level for a single municipality
LAYER_ZOOM_THRESHOLD = 9  # zoom >= threshold shows municipalities

# Colors
BLUE_PALETTE = [
    "#e6f2ff",  # lightest blue
    "#cce5ff",
    "#99cbff",
    "#66b0ff",
    "#3395ff",
    "#0078d4",
    "#005a9e",
    "#004578",
    "#002b49",  # darkest blue
]
RED_GRADIENT_FLAT = "rgba(255, 200, 200, 1)"
ENTITY_FALLBACK_FILL = "#f7f7f7"
REGION_FALLBACK_FILL = "#ececec"
DEFAULT_BORDER = "#999"
SELECTED_BORDER = "#252423"

# Rankings
DEFAULT_RANKING_COUNT = 10

LOG_LEVEL = os.environ.get("SLOSTAT_LOG_LEVEL", "INFO")

# Parameter groups shown in the UI. "field" is the CSV column.
PARAMETER_GROUPS = [
    {
        "id": "income",
        "name": "Prihodki",
        "parameters": [
            {"id": "grossIncome", "name": "Bruto dohodek - SKUPAJ", "field": "Gross income - TOTAL", "unit": "€"},
            {"id": "incomeFromWork", "name": "Dohodek iz dela", "field": "Income from work", "unit": "€"},
            {"id": "parentalFamilySocialBenefits", "name": "Starševski, družinski in socialni prejemki",
             "field": "Parental, family and social benefits", "unit": "€"},
            {"id": "pensions", "name": "Pokojnine", "field": "Pensions", "unit": "€"},
            {"id": "propertyCapitalOtherIncome", "name": "Dohodek iz premoženja, kapitala in drugi",
             "field": "Property, capital and other income", "unit": "€"},
        ],
    },
    {
        "id": "education",
        "name": "Izobrazba",
        "parameters": [
            {"id": "educationTotal", "name": "Izobrazba - SKUPAJ", "field": "Education - TOTAL", "unit": "people"},
            {"id": "tertiary", "name": "Terciarna izobrazba", "field": "Tertiary", "unit": "people"},
            {"id": "upperSecondary", "name": "Srednješolska izobrazba", "field": "Upper secondary", "unit": "people"},
            {"id": "basicOrLess", "name": "Osnovnošolska ali manj", "field": "Basic or less", "unit": "people"},
        ],
    },
    {
        "id": "migration",
        "name": "Migracije",
        "parameters": [
            {"id": "labourMigrationIndex", "name": "Indeks delovne migracije",
             "field": "Labour migration index", "unit": ""},
            {"id": "labourMigrationIndexMen", "name": "Indeks delovne migracije - moški",
             "field": "Labour migration index - men", "unit": ""},
            {"id": "labourMigrationIndexWomen", "name": "Indeks delovne migracije - ženske",
             "field": "Labour migration index - women", "unit": ""},
        ],
    },
    {
        "id": "employment",
        "name": "Zaposlitev",
        "parameters": [
            {"id": "personsInEmploymentLocalRes", "name": "Delovno aktivni v občini prebivališča",
             "field": "Persons in employment [excluding farmers] whose workplace is in the municipality of their residence",
             "unit": "people"},
            {"id": "personsInEmploymentLocalResMen", "name": "Delovno aktivni v občini prebivališča - moški",
             "field": "Persons in employment [excluding farmers] whose workplace is in the municipality of their residence - men",
             "unit": "people"},
            {"id": "personsInEmploymentLocalResWomen", "name": "Delovno aktivni v občini prebivališča - ženske",
             "field": "Persons in employment [excluding farmers] whose workplace is in the municipality of their residence - women",
             "unit": "people"},
        ],
    },
]

PARAMETER_DESCRIPTIONS = {
    "Gross income - TOTAL": "Skupni znesek vseh prejetih bruto dohodkov (vključno z dohodki iz dela, pokojninami itd.).",
    "Income from work": "Dohodki iz zaposlitve, samozaposlitve ali drugega plačanega dela.",
    "Parental, family and social benefits": "Otroški dodatki, nadomestila za starševstvo, socialna pomoč ipd.",
    "Pensions": "Dohodki, prejeti kot pokojnina po upokojitvi.",
    "Property, capital and other income": "Najemnine, dividende, obresti in drugi ne-delovni dohodki.",
    "Education - TOTAL": "Prebivalstvo glede na doseženo izobrazbo (skupno).",
    "Tertiary": "Višješolska, visokošolska, magistrska ali doktorska izobrazba.",
    "Upper secondary": "Poklicna in splošna srednješolska izobrazba.",
    "Basic or less": "Prebivalstvo z največ osnovnošolsko izobrazbo ali brez nje.",
    "Labour migration index": "Razmerje med delovnimi mesti v občini in delovno aktivnimi prebivalci občine.",
}
