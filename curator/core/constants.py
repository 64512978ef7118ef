"""Constantes partagées pour éviter les valeurs magiques dans le code.

Codes HTTP utilisés par les connecteurs et les routes, bornes de recherche et
valeurs par défaut du pipeline.
"""

# Codes de statut HTTP courants
HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_PAYMENT_REQUIRED = 402
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR_MIN = 500
HTTP_BAD_GATEWAY = 502

# Recherche par similarité
MIN_TOP_K = 1
MAX_TOP_K = 50

# Domaines de contenu supportés
DOMAINS = ("music", "news", "recipes", "learning", "events")
USER_ACTIONS = ("save", "try", "attend", "purchase")

# Approximation tokens -> caractères pour la préparation des textes
CHARS_PER_TOKEN = 4
TRUNCATION_MARKER = "..."
