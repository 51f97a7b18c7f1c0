"""Offline-first synchronization engine for vehicle inspection checklists."""
