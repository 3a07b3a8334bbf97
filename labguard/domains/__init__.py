# labguard/domains/__init__.py
