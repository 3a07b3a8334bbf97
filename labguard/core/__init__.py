# labguard/core/__init__.py
