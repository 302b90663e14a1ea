"""Campus Invoicing package.

Feature modules (reference, users, credentials, invoices, notifications, ...)
each hold a model, a repository interface with its MySQL implementation, a
service layer and a thin Flask controller.
"""
