"""School Attendance package.

Feature modules (schools, classes, devices, users, students, attendance,
dashboard, realtime) each keep a thin Flask controller layer on top of
service and repository layers.
"""
