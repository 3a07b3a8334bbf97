# labguard/domains/usr/__init__.py
