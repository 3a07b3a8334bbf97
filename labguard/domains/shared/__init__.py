# labguard/domains/shared/__init__.py
