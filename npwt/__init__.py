"""Backend NPWT : inventaire, procédures et rapports de consommation"""

__version__ = "1.0.0"
