"""
HTTP сервисы отслеживания.
"""

__all__: list[str] = []
