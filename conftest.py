"""
Root conftest: puts the repository root on sys.path so ``main`` is importable.
"""
