# labguard/domains/prv/__init__.py
