APP_NAME = "Gourava"
SCHEMA_VERSION = "1"
DB_FILENAME = "gourava.db"
DATA_DIR_ENV = "GOURAVA_DATA_DIR"

INITIALIZED_KEY = "initialized"

# (name, tags, criteria) seeded on first launch.
DEFAULT_TEMPLATES = (
    ("Pizza", ("Italian", "Fast Food", "Pizza"), ("Taste", "Flavor Blend", "Firmness")),
    ("Movie", ("Movie",), ("Length", "Enjoyment", "Soundtrack")),
    ("Clothes", ("Clothing",), ("Comfort", "Quality", "Price")),
)

HOME_ITEM_SAMPLE = 2
HOME_USAGE_SAMPLE = 4

MIN_RATING = 0.0
MAX_RATING = 5.0
RATING_STEP = 0.5
