"""Category catalogue: seeded defaults, the allowed label set and the
ordered keyword table used by the heuristic categorizer."""

from __future__ import annotations

from typing import TypedDict

OTHER_CATEGORY = "Other"


class CategorySeed(TypedDict):
    name: str
    color: str
    icon: str


DEFAULT_CATEGORIES: tuple[CategorySeed, ...] = (
    {"name": "Food & Dining", "color": "#10B981", "icon": "Utensils"},
    {"name": "Transportation", "color": "#3B82F6", "icon": "Car"},
    {"name": "Shopping", "color": "#8B5CF6", "icon": "ShoppingBag"},
    {"name": "Entertainment", "color": "#F59E0B", "icon": "Film"},
    {"name": "Healthcare", "color": "#EF4444", "icon": "Heart"},
    {"name": "Utilities", "color": "#06B6D4", "icon": "Zap"},
    {"name": "Housing", "color": "#84CC16", "icon": "Home"},
    {"name": "Education", "color": "#EC4899", "icon": "GraduationCap"},
    {"name": "Travel", "color": "#F97316", "icon": "Plane"},
    {"name": "Insurance", "color": "#6366F1", "icon": "Shield"},
    {"name": "Investment", "color": "#22C55E", "icon": "TrendingUp"},
    {"name": "Salary", "color": "#10B981", "icon": "DollarSign"},
    {"name": "Freelance", "color": "#3B82F6", "icon": "Briefcase"},
    {"name": "Gifts", "color": "#8B5CF6", "icon": "Gift"},
    {"name": "Subscriptions", "color": "#F59E0B", "icon": "Repeat"},
    {"name": "Services", "color": "#14B8A6", "icon": "Wrench"},
    {"name": "Technology", "color": "#6366F1", "icon": "Smartphone"},
    {"name": "Business", "color": "#F59E0B", "icon": "Briefcase"},
    {"name": "Personal Care", "color": "#EC4899", "icon": "Scissors"},
    {"name": "Fitness", "color": "#10B981", "icon": "Dumbbell"},
    {"name": "Pets", "color": "#F97316", "icon": "Heart"},
    {"name": "Charity", "color": "#EF4444", "icon": "Heart"},
    {"name": "Legal", "color": "#8B5CF6", "icon": "Scale"},
    {"name": "Taxes", "color": "#F59E0B", "icon": "FileText"},
)

CATEGORY_DESCRIPTIONS: dict[str, str] = {
    "Food & Dining": (
        "restaurants, cafes, fast food, groceries, coffee shops, McDonald's"
    ),
    "Transportation": (
        "gas, parking, rideshare, public transit, car services, bicycle shops"
    ),
    "Shopping": "retail stores, online shopping, clothing, electronics",
    "Entertainment": "movies, streaming, games, concerts, hobbies",
    "Healthcare": "medical, dental, pharmacy, health services",
    "Utilities": "electricity, water, internet, phone bills",
    "Housing": "rent, mortgage, home maintenance",
    "Education": "tuition, books, courses, training",
    "Travel": "flights, hotels, vacation expenses",
    "Insurance": "health, car, home, life insurance",
    "Investment": "stocks, bonds, retirement accounts",
    "Salary": "regular employment income, payroll deposits, ACH credits",
    "Freelance": "contract work, consulting income",
    "Gifts": "presents, donations to individuals",
    "Subscriptions": "recurring services, memberships",
    "Services": "professional services, repairs, maintenance",
    "Technology": "software, apps, tech equipment, electronics components",
    "Business": "work expenses, office supplies, business meals",
    "Personal Care": "haircuts, beauty, grooming",
    "Fitness": "gym, sports, exercise equipment",
    "Pets": "pet food, vet bills, pet services",
    "Charity": "donations to organizations",
    "Legal": "legal fees, court costs",
    "Taxes": "tax payments, filing fees",
}

ALLOWED_CATEGORIES: tuple[str, ...] = (
    *(seed["name"] for seed in DEFAULT_CATEGORIES),
    OTHER_CATEGORY,
)

# Order matters: the first category with a matching keyword wins.
KEYWORD_TABLE: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "Food & Dining",
        (
            "restaurant",
            "cafe",
            "food",
            "grocery",
            "pizza",
            "coffee",
            "lunch",
            "dinner",
            "breakfast",
            "mcdonalds",
            "mcdonald",
            "burger",
            "taco",
            "sushi",
            "chinese",
            "italian",
            "starbucks",
            "subway",
            "kfc",
            "wendys",
            "chipotle",
            "dominos",
            "papa johns",
            "dunkin",
            "dunkin donuts",
            "taco bell",
            "burger king",
            "five guys",
            "shake shack",
            "in-n-out",
            "whataburger",
            "culvers",
            "sonic",
            "arby",
            "popeyes",
            "chick-fil-a",
            "chick fil a",
            "zaxby",
            "bojangles",
            "raising canes",
            "canes",
        ),
    ),
    (
        "Transportation",
        (
            "uber",
            "lyft",
            "gas",
            "fuel",
            "parking",
            "taxi",
            "transit",
            "bus",
            "train",
            "metro",
            "subway",
            "bicycle",
            "bike",
            "madison bicycle",
            "bicycle shop",
            "car wash",
            "auto",
            "repair",
            "oil change",
            "tire",
            "brake",
            "transmission",
            "mechanic",
            "dealership",
            "car dealer",
            "auto parts",
            "napa",
            "oreilly",
            "autozone",
            "advance auto",
        ),
    ),
    (
        "Shopping",
        (
            "amazon",
            "store",
            "shop",
            "retail",
            "mall",
            "buy",
            "walmart",
            "target",
            "costco",
            "best buy",
            "home depot",
            "lowes",
            "ikea",
            "clothing",
            "apparel",
        ),
    ),
    (
        "Entertainment",
        (
            "movie",
            "netflix",
            "spotify",
            "game",
            "concert",
            "theater",
            "show",
            "sparkfun",
            "hobby",
            "craft",
            "art",
            "music",
            "streaming",
            "youtube",
            "disney",
            "hulu",
            "hbo",
            "paramount",
            "peacock",
            "apple tv",
            "prime video",
            "amazon prime",
            "twitch",
            "tiktok",
            "instagram",
            "facebook",
            "twitter",
            "reddit",
            "discord",
            "steam",
            "playstation",
            "xbox",
            "nintendo",
            "esports",
            "gaming",
        ),
    ),
    (
        "Healthcare",
        (
            "doctor",
            "pharmacy",
            "medical",
            "health",
            "dentist",
            "hospital",
            "clinic",
            "cvs",
            "walgreens",
            "rite aid",
            "prescription",
            "medicine",
        ),
    ),
    (
        "Utilities",
        (
            "electric",
            "water",
            "phone",
            "internet",
            "cable",
            "wifi",
            "power",
            "gas company",
            "utility",
            "energy",
        ),
    ),
    (
        "Technology",
        (
            "sparkfun",
            "electronics",
            "computer",
            "laptop",
            "desktop",
            "tablet",
            "smartphone",
            "phone",
            "software",
            "app",
            "subscription",
            "saas",
            "cloud",
            "server",
            "hosting",
            "domain",
            "website",
            "web hosting",
            "github",
            "gitlab",
            "bitbucket",
            "aws",
            "amazon web services",
            "google cloud",
            "azure",
            "microsoft azure",
            "digitalocean",
            "heroku",
            "vercel",
            "netlify",
            "shopify",
            "wordpress",
            "squarespace",
            "wix",
            "weebly",
            "figma",
            "adobe",
            "creative cloud",
            "office 365",
            "microsoft office",
            "google workspace",
            "g suite",
            "slack",
            "zoom",
            "teams",
            "discord",
            "notion",
            "asana",
            "trello",
            "jira",
            "confluence",
            "dropbox",
            "google drive",
            "onedrive",
            "icloud",
            "backblaze",
            "carbonite",
            "lastpass",
            "1password",
            "bitwarden",
            "dashlane",
            "nordvpn",
            "expressvpn",
            "surfshark",
            "protonvpn",
        ),
    ),
    (
        "Services",
        (
            "tectra",
            "tectra inc",
            "consulting",
            "professional",
            "expert",
            "service",
            "repair",
            "maintenance",
            "cleaning",
            "laundry",
            "dry cleaning",
            "landscaping",
            "gardening",
            "pool service",
            "housekeeping",
            "maid service",
            "janitorial",
            "security",
            "alarm",
            "monitoring",
            "installation",
            "setup",
            "assembly",
            "delivery",
            "shipping",
            "freight",
            "logistics",
            "storage",
            "warehouse",
            "moving",
            "relocation",
            "packing",
            "unpacking",
            "organizing",
            "decluttering",
            "interior design",
            "decorating",
            "renovation",
            "remodeling",
            "construction",
            "contractor",
            "plumber",
            "electrician",
            "hvac",
            "heating",
            "cooling",
            "ac repair",
            "heater repair",
            "furnace repair",
            "appliance repair",
            "computer repair",
            "phone repair",
            "screen repair",
            "battery replacement",
            "key replacement",
            "lock repair",
            "garage door",
            "gate repair",
            "fence repair",
            "roof repair",
            "gutter cleaning",
            "window cleaning",
            "pressure washing",
            "pest control",
            "exterminator",
            "termite",
            "rodent",
            "insect",
            "weed control",
            "fertilizer",
            "irrigation",
            "sprinkler",
            "tree service",
            "tree trimming",
            "tree removal",
            "stump grinding",
            "mulch",
            "soil",
            "compost",
            "fertilizer",
            "pesticide",
            "herbicide",
        ),
    ),
    (
        "Housing",
        (
            "rent",
            "mortgage",
            "home",
            "apartment",
            "house",
            "maintenance",
            "repair",
            "furniture",
            "appliance",
            "home depot",
            "lowes",
        ),
    ),
    (
        "Education",
        (
            "tuition",
            "school",
            "college",
            "university",
            "course",
            "training",
            "book",
            "textbook",
            "library",
            "student",
        ),
    ),
    (
        "Travel",
        (
            "hotel",
            "flight",
            "airline",
            "vacation",
            "trip",
            "travel",
            "airbnb",
            "booking",
            "expedia",
            "orbitz",
        ),
    ),
    (
        "Insurance",
        (
            "insurance",
            "geico",
            "state farm",
            "allstate",
            "progressive",
            "health",
            "car insurance",
            "home insurance",
            "life insurance",
        ),
    ),
    (
        "Investment",
        (
            "investment",
            "stock",
            "bond",
            "retirement",
            "401k",
            "ira",
            "robinhood",
            "fidelity",
            "vanguard",
            "schwab",
        ),
    ),
    (
        "Salary",
        (
            "salary",
            "payroll",
            "deposit",
            "direct deposit",
            "paycheck",
            "income",
            "gusto",
            "pay",
            "wage",
        ),
    ),
    (
        "Freelance",
        (
            "freelance",
            "contract",
            "consulting",
            "upwork",
            "fiverr",
            "gig",
            "independent",
            "self-employed",
        ),
    ),
    ("Gifts", ("gift", "present", "donation", "charity", "give", "contribution")),
    (
        "Subscriptions",
        (
            "subscription",
            "membership",
            "recurring",
            "monthly",
            "annual",
            "netflix",
            "spotify",
            "hulu",
            "disney",
            "amazon prime",
        ),
    ),
    (
        "Business",
        (
            "business",
            "office",
            "work",
            "professional",
            "corporate",
            "meeting",
            "conference",
            "expense",
            "client",
        ),
    ),
    (
        "Personal Care",
        (
            "haircut",
            "salon",
            "beauty",
            "grooming",
            "spa",
            "massage",
            "nail",
            "cosmetic",
            "personal care",
        ),
    ),
    (
        "Fitness",
        (
            "gym",
            "fitness",
            "workout",
            "exercise",
            "sports",
            "athletic",
            "planet fitness",
            "la fitness",
            "24 hour fitness",
        ),
    ),
    (
        "Pets",
        (
            "pet",
            "dog",
            "cat",
            "veterinary",
            "vet",
            "animal",
            "petco",
            "petsmart",
        ),
    ),
    (
        "Charity",
        (
            "charity",
            "donation",
            "nonprofit",
            "foundation",
            "cause",
            "help",
        ),
    ),
    ("Legal", ("legal", "lawyer", "attorney", "court", "law", "legal fee")),
    ("Taxes", ("tax", "irs", "filing", "tax return", "tax payment")),
)


def match_allowed_category(label: str) -> str | None:
    """Return the canonical allowed category for ``label`` (case-insensitive)."""
    wanted = label.strip().casefold()
    for name in ALLOWED_CATEGORIES:
        if name.casefold() == wanted:
            return name
    return None
