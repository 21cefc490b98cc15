"""Integration tests that drive ``python -m conductr_tasks`` in a child interpreter."""
