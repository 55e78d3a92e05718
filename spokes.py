from dataclasses import dataclass

import numpy as np

STANDARD_GRAVITY = 9.80665  # m/s²

TENSION_MIN = 300
TENSION_MAX = 2000

DEFAULT_DENSITY = 7850  # kg/m³


@dataclass(frozen=True)
class Material:
    name: str
    density: float  # kg/m³


MATERIALS = {
    "steel": Material("steel", 7858),
    "titanium": Material("titanium", 4500),
    "aluminium": Material("aluminium", 2700),
}


def material_density(name):
    material = MATERIALS.get(name)
    if material is None:
        return DEFAULT_DENSITY
    return material.density


def cross_section(diameter):
    return np.pi*(diameter / 2)**2


def tension(frequency, length, diameter, density, calibration=1.0):
    """Tension in newtons of a spoke vibrating at `frequency`.

    Solves f = sqrt(T/mu) / (2L) for T, with mu = density*area, then
    applies the calibration factor.
    """
    mu = density*cross_section(diameter)
    return mu*(2*length*frequency)**2*calibration


def frequency(tension, length, diameter, density, calibration=1.0):
    mu = density*cross_section(diameter)*calibration
    return np.sqrt(tension / mu) / (2*length)


def newton2kgf(TN):
    return TN / STANDARD_GRAVITY


def kgf2newton(Tkgf):
    return Tkgf * STANDARD_GRAVITY


CHART_LENGTHS = (0.10, 0.15, 0.18, 0.20, 0.22, 0.25, 0.30)  # meters
ACCEPTABLE_TENSION = (900, 1200)  # N


def plot_tension_chart(ax, diameter, density, lengths=CHART_LENGTHS,
                       tension_range=(250, TENSION_MAX),
                       acceptable=ACCEPTABLE_TENSION, calibration=1.0):
    """Expected pluck pitch against tension, one curve per spoke length.

    The acceptable tension window is shaded per curve and a kgf scale is
    added below the newton axis. Returns the secondary kgf axis.
    """
    tension_values = np.linspace(start=tension_range[0], stop=tension_range[1],
                                 num=1200)
    low, high = acceptable

    for i, length in enumerate(lengths):
        freq_values = frequency(tension_values, length, diameter, density,
                                calibration)
        line, = ax.plot(tension_values, freq_values,
                        label=f'{length * 100:.0f} cm',
                        linewidth=2, linestyle='-' if i % 2 == 0 else '--')
        ax.fill_betweenx(
            [frequency(low, length, diameter, density, calibration),
             frequency(high, length, diameter, density, calibration)],
            low, high,
            color=line.get_color(),
            alpha=0.2
        )

    ax.xaxis.set_label_position('top')
    ax.xaxis.tick_top()
    ax.set_xlabel('Tension (N)', labelpad=10)
    ax.set_ylabel('Frequency (Hz)')
    ax.grid(True)
    ax.legend(title='Spoke Length')

    ax_kgf = ax.secondary_xaxis(location='bottom',
                                functions=(newton2kgf, kgf2newton))
    ax_kgf.set_xlabel("Tension (kgf)")
    return ax_kgf


def save_tension_chart(path, diameter, density, **kwargs):
    import matplotlib
    from matplotlib.figure import Figure

    with matplotlib.rc_context({'font.size': 14}):
        fig = Figure(figsize=(8, 8))
        ax = fig.subplots()
        plot_tension_chart(ax, diameter, density, **kwargs)
        fig.tight_layout()
        fig.savefig(path)
    return fig
