# labguard/domains/fms/__init__.py
