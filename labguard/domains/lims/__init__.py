# labguard/domains/lims/__init__.py
