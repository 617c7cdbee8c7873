"""
Módulo de Inventario (Kardex)

ENTIDADES PRINCIPALES:
- Movement: Movimiento inmutable con saldo acumulado por (producto, almacén)

OPERACIONES:
- register_sale / register_purchase / register_transfer: una transacción por llamada
- register_adjustment: ajuste manual como movimiento compensatorio
- validate_stock / get_current_stock: consultas de saldo
- get_kardex / get_movements / get_low_stock: consultas del libro

INTEGRACIÓN CON OTROS MÓDULOS:
- Orders: completar una orden descuenta stock
- Purchases: recibir una orden de compra suma stock
- Transfers: recibir una transferencia mueve stock entre almacenes
"""
