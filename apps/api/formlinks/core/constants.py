"""Application constants."""

import string

# Form link tokens: the sole bearer credential for the public form.
TOKEN_ALPHABET = string.ascii_letters + string.digits
TOKEN_LENGTH = 32
TOKEN_GENERATION_MAX_ATTEMPTS = 5

# Offer numbers synthesized from approved forms: FORM-yyyymmdd-XXXX
OFFER_NUMBER_PREFIX = "FORM"
OFFER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
OFFER_NUMBER_RANDOM_LENGTH = 4
OFFER_NUMBER_MAX_ATTEMPTS = 5

OFFER_TITLE_MAX_LENGTH = 50

CUSTOMER_REFERENCE_PREFIX = "cref_"
CUSTOMER_REFERENCE_LENGTH = 24

# Consent type required before emailing a customer directly
COMMUNICATION_CONSENT = "communication"
