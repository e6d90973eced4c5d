"""
Relatórios module: attendance report (instrutor/admin) and users report
(admin) with CSV/XLSX export.
"""
