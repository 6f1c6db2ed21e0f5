"""
Negocios (tenants)

La gestión de negocios vive fuera de este servicio; aquí solo se lee la
configuración que necesita la facturación: tipo de negocio (exento o no),
prefijo de numeración y número inicial.
"""
