"""Multi-tenant booking engine for service businesses"""
