# constants/products.py

# Canonical product names mapped to the spellings people actually type.
# Order matters: the first canonical key that matches wins.
PRODUCT_SYNONYMS = {
    "big": [
        "big",
        "bigg",
        "bg",
        "large",
        "큰거",
        "근거",
        "큰것",
        "크거",
        "큼거",
        "큰",
        "대",
    ],
    "green": [
        "green",
        "gren",
        "grean",
        "greem",
        "녹색",
        "녹섹",
        "노색",
        "눅색",
        "녹색색",
        "초록",
        "초록색",
        "그린",
    ],
    "blue": [
        "blue",
        "blu",
        "bleu",
        "파랑",
        "파랑색",
        "파란",
        "파라",
        "퍼렁",
        "파랑이",
        "블루",
    ],
}

PRODUCT_NAMES = list(PRODUCT_SYNONYMS.keys())
