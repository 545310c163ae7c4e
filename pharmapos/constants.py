from decimal import Decimal

DISCOUNT_NONE = "None"
DISCOUNT_SENIOR = "Senior"
DISCOUNT_PWD = "PWD"
DISCOUNT_EMPLOYEE = "Employee"
DISCOUNT_CUSTOM = "Custom"

DISCOUNT_TYPES = {
    DISCOUNT_NONE: "No discount",
    DISCOUNT_SENIOR: "Senior citizen (20%)",
    DISCOUNT_PWD: "Person with disability (20%)",
    DISCOUNT_EMPLOYEE: "Employee (10%)",
    DISCOUNT_CUSTOM: "Custom percent",
}

# fixed tiers; Custom is resolved from the selection's own percent
TIER_RATES = {
    DISCOUNT_SENIOR: Decimal("0.20"),
    DISCOUNT_PWD: Decimal("0.20"),
    DISCOUNT_EMPLOYEE: Decimal("0.10"),
}

VAT_RATE = Decimal("0.12")

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
PMS_ROLES = (ROLE_ADMIN, ROLE_MANAGER)

PAYMENT_METHODS = ("cash", "card", "gcash")
