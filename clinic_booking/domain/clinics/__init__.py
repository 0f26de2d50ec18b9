"""
Clinic configuration domain

Weekly availability, consultation types, booking rules and blocked slots
managed from the staff dashboard.
"""
