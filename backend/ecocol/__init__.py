"""
ECO-COL Viewer - Tele-radiology annotation and measurement toolkit

This package provides the headless canvas toolkit behind the ECO-COL DICOM
viewer: drawing tools, annotation and measurement stores, zoom/pan, layered
rendering and frame/video/report export, plus a small HTTP host for
persisting annotation data per study.
"""

__version__ = "1.0.0"
__author__ = "ECO-COL Team"
