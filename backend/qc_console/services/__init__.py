"""Game QC Console - Services"""
