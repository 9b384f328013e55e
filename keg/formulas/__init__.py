""" Built-in formulas. Modules register their formulas on import. """
