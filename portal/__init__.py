"""Portal de Serviços da Câmara Municipal: citizen requests and staff triage."""

__version__ = "1.0.0"
