"""
Clientes

El CRUD de clientes es externo a este servicio. La facturación solo lee un
cliente (acotado al negocio) para validarlo y copiar sus datos en la factura
al finalizarla.
"""
