"""EMR administration application.

Models, services, serializers, views and route registrations for access
control (roles, modules, operations), user management, doctor schedules
and the task board.
"""
