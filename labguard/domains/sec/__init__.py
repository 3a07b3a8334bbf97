# labguard/domains/sec/__init__.py
