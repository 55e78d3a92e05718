import logging
import threading
import time

import numpy as np
import pyqtgraph
from pyqtgraph.Qt import QtWidgets
from PyQt6.QtCore import Qt
from PyQt6.QtGui import QFont

import spokes
from config import SpokeSettings
from errors import SpokeTensionError
from session import format_measurement, measure

LOGGER = logging.getLogger(__name__)


def qt_sleep(ms):
    deadline = time.monotonic() + ms / 1000
    while time.monotonic() < deadline:
        QtWidgets.QApplication.processEvents()
        time.sleep(0.005)


class MainWindow(QtWidgets.QWidget):
    def __init__(self, args, make_capture):
        super().__init__()
        self.args = args
        self.make_capture = make_capture
        self.cancel = None
        self.readings = []

        self.setWindowTitle("spoke_pluck_tension")
        self.resize(1000, 600)
        main_layout = QtWidgets.QVBoxLayout()
        self.setLayout(main_layout)

        form = QtWidgets.QFormLayout()
        self.length_input = QtWidgets.QLineEdit(f"{args.length:g}")
        self.diameter_input = QtWidgets.QLineEdit(f"{args.diameter:g}")
        self.material_select = QtWidgets.QComboBox()
        for name, material in spokes.MATERIALS.items():
            self.material_select.addItem(f"{name} ({material.density} kg/m³)", name)
        self.material_select.setCurrentIndex(
            list(spokes.MATERIALS).index(args.material))
        self.duration_input = QtWidgets.QLineEdit(f"{args.duration:g}")
        self.calibration_input = QtWidgets.QLineEdit(f"{args.calibration:g}")
        form.addRow("Spoke Length (mm):", self.length_input)
        form.addRow("Spoke Diameter (mm):", self.diameter_input)
        form.addRow("Material:", self.material_select)
        form.addRow("Duration (s):", self.duration_input)
        form.addRow("Calibration:", self.calibration_input)
        main_layout.addLayout(form)

        buttons = QtWidgets.QHBoxLayout()
        self.measure_button = QtWidgets.QPushButton("Measure")
        self.measure_button.clicked.connect(self.on_measure)
        self.cancel_button = QtWidgets.QPushButton("Cancel")
        self.cancel_button.setEnabled(False)
        self.cancel_button.clicked.connect(self.on_cancel)
        buttons.addWidget(self.measure_button)
        buttons.addWidget(self.cancel_button)
        main_layout.addLayout(buttons)

        self.result_label = QtWidgets.QLabel("-- kgf")
        self.result_label.setFont(QFont('LiberationSans', 18))
        self.status_label = QtWidgets.QLabel("Status: ready")
        main_layout.addWidget(self.result_label)
        main_layout.addWidget(self.status_label)

        layout_plots = pyqtgraph.GraphicsLayoutWidget()
        self.plot = layout_plots.addPlot(title="Pitch Readings")
        self.curve = self.plot.plot(
            pen=None, symbol='o', symbolBrush='y', symbolSize=8
        )
        self.mean_line = pyqtgraph.InfiniteLine(
            angle=0, pen=pyqtgraph.mkPen('c', width=2, style=Qt.PenStyle.DashLine)
        )
        self.mean_line.hide()
        self.plot.addItem(self.mean_line)
        self.plot.showGrid(x=True, y=True)
        self.plot.setLabel('bottom', 'Tick')

        frequency_axis = pyqtgraph.AxisItem(orientation='left')
        frequency_axis.tickStrings = lambda values, scale, spacing: [
            f"{round(v)}Hz" for v in values]
        tension_axis = pyqtgraph.AxisItem(orientation='right')
        tension_axis.tickStrings = self.tick_strings_tension
        self.plot.setAxisItems({'left': frequency_axis, 'right': tension_axis})
        self.plot.showAxis('right')
        self.reset_range()
        main_layout.addWidget(layout_plots)

    def current_settings(self):
        try:
            settings = SpokeSettings.from_user(
                self.length_input.text(), self.diameter_input.text(),
                material=self.material_select.currentData(),
                duration=self.duration_input.text(),
                calibration=self.calibration_input.text(),
                estimator=self.args.estimator)
        except ValueError:
            QtWidgets.QMessageBox.warning(self, "Invalid Input",
                                          "Enter spoke length and diameter in mm.")
            return None
        self.duration_input.setText(f"{settings.duration:g}")
        self.calibration_input.setText(f"{settings.calibration:g}")
        return settings

    def tick_strings_tension(self, values, scale, spacing):
        settings = self.current_settings_quiet()
        if settings is None:
            return ["" for v in values]
        strings = []
        for v in values:
            TN = spokes.tension(max(v, 0), settings.length, settings.diameter,
                                settings.density, settings.calibration)
            strings.append(f"{round(TN)}N {round(spokes.newton2kgf(TN))}kgf")
        return strings

    def current_settings_quiet(self):
        try:
            return SpokeSettings.from_user(
                self.length_input.text(), self.diameter_input.text(),
                material=self.material_select.currentData(),
                calibration=self.calibration_input.text()).validate()
        except ValueError:
            return None

    def reset_range(self):
        settings = self.current_settings_quiet()
        if settings is None:
            return
        f0, f1 = (spokes.frequency(TN, settings.length, settings.diameter,
                                   settings.density, settings.calibration)
                  for TN in (spokes.TENSION_MIN, spokes.TENSION_MAX))
        self.plot.setYRange(f0, f1)

    def on_reading(self, frequency):
        self.readings.append(frequency)
        self.curve.setData(np.arange(len(self.readings)), self.readings)

    def on_cancel(self):
        if self.cancel is not None:
            self.cancel.set()

    def on_measure(self):
        settings = self.current_settings()
        if settings is None:
            return

        self.readings = []
        self.curve.setData([], [])
        self.reset_range()
        self.mean_line.hide()
        self.result_label.setText("-- kgf")
        self.status_label.setText("Status: recording...")
        self.measure_button.setEnabled(False)
        self.cancel_button.setEnabled(True)
        self.cancel = threading.Event()

        try:
            result = measure(self.make_capture(self.args), settings,
                             sleep=qt_sleep, cancel=self.cancel,
                             on_reading=self.on_reading)
        except SpokeTensionError as e:
            LOGGER.warning("measurement failed: %s", e)
            self.status_label.setText(f"Status: {e}")
        else:
            self.result_label.setText(format_measurement(result))
            self.mean_line.setValue(result.frequency_hz)
            self.mean_line.show()
            self.status_label.setText("Status: ready")
        finally:
            self.cancel = None
            self.measure_button.setEnabled(True)
            self.cancel_button.setEnabled(False)
