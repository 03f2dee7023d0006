"""
Доменный слой: геодезия, история локаций, конвейер отслеживания.
"""
