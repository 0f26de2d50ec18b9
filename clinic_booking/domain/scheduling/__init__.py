"""
Scheduling domain

Slot resolution, conflict detection, booking rules and the booking
transaction for clinic appointments.
"""
