"""Price table (V3) and room catalog constants"""

# Prices in reais, per room key and product type
PRICES_V3 = {
    "SALA_A": {
        "HOURLY_RATE": 59.99,
        "PACKAGE_10H": 559.90,
        "PACKAGE_20H": 1039.80,
        "PACKAGE_40H": 1959.60,
        "SHIFT_FIXED": 728.99,
        "DAY_PASS": 369.99,
        "SATURDAY_HOUR": 64.99,
        "SATURDAY_5H": 299.95,
    },
    "SALA_B": {
        "HOURLY_RATE": 49.99,
        "PACKAGE_10H": 459.90,
        "PACKAGE_20H": 839.80,
        "PACKAGE_40H": 1559.60,
        "SHIFT_FIXED": 580.99,
        "DAY_PASS": 299.99,
        "SATURDAY_HOUR": 53.99,
        "SATURDAY_5H": 249.95,
    },
    "SALA_C": {
        "HOURLY_RATE": 39.99,
        "PACKAGE_10H": 359.90,
        "PACKAGE_20H": 659.80,
        "PACKAGE_40H": 1199.60,
        "SHIFT_FIXED": 446.99,
        "DAY_PASS": 229.99,
        "SATURDAY_HOUR": 42.99,
        "SATURDAY_5H": 199.95,
    },
}

ROOM_SLUG_MAP = {
    "sala-a": "SALA_A",
    "sala-b": "SALA_B",
    "sala-c": "SALA_C",
}

# Lower tier number = more expensive room
ROOM_TIERS = {"SALA_A": 1, "SALA_B": 2, "SALA_C": 3}

ROOM_INFO = {
    "SALA_A": {"name": "Sala A", "capacity": 4, "size_m2": 20},
    "SALA_B": {"name": "Sala B", "capacity": 3, "size_m2": 15},
    "SALA_C": {"name": "Sala C", "capacity": 2, "size_m2": 10},
}

PRODUCT_HOURS = {
    "HOURLY_RATE": 1,
    "PACKAGE_10H": 10,
    "PACKAGE_20H": 20,
    "PACKAGE_40H": 40,
    "SHIFT_FIXED": 16,
    "DAY_PASS": 8,
    "SATURDAY_HOUR": 1,
    "SATURDAY_5H": 5,
}

# Catalog validity (days) written to products when seeding
PRODUCT_VALIDITY = {
    "HOURLY_RATE": 1,
    "PACKAGE_10H": 90,
    "PACKAGE_20H": 90,
    "PACKAGE_40H": 180,
    "SHIFT_FIXED": 30,
    "DAY_PASS": 1,
    "SATURDAY_HOUR": 1,
    "SATURDAY_5H": 1,
}

PRODUCT_NAMES = {
    "HOURLY_RATE": "Hora avulsa",
    "PACKAGE_10H": "Pacote 10 horas",
    "PACKAGE_20H": "Pacote 20 horas",
    "PACKAGE_40H": "Pacote 40 horas",
    "SHIFT_FIXED": "Turno fixo (4 semanas)",
    "DAY_PASS": "Diária",
    "SATURDAY_HOUR": "Hora sábado",
    "SATURDAY_5H": "Pacote sábado 5 horas",
}

PACKAGE_TYPES = ("PACKAGE_10H", "PACKAGE_20H", "PACKAGE_40H", "SHIFT_FIXED", "SATURDAY_5H")

# No longer sold; existing credits keep working
DISCONTINUED_PRODUCT_TYPES = ("DAY_PASS", "SATURDAY_5H")

DEFAULT_CREDIT_VALIDITY_DAYS = 90
