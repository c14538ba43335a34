"""
Charts of simulated ferry demand.

Draws the daily and cumulative trip series per queue, averaged over
iterations, plus end-of-day queue lengths and balking.
"""

import logging
import os
from typing import Dict, Optional

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np

from ..core.data_models import QueueKey, QUEUE_COLUMNS, SimulationConfig, SimulationResults

logger = logging.getLogger(__name__)

COLORS = {
    QueueKey.CAR_OUTBOUND: 'tab:red',
    QueueKey.BIKE_OUTBOUND: 'tab:green',
    QueueKey.CAR_RETURN: 'tab:orange',
    QueueKey.BIKE_RETURN: 'tab:olive',
}


class ResultsPlotter:
    """Render result charts to PNG files."""

    def __init__(self, output_dir: str = "output"):
        self.plots_dir = os.path.join(output_dir, "plots")
        os.makedirs(self.plots_dir, exist_ok=True)

        plt.style.use('default')
        plt.rcParams['figure.figsize'] = (12, 8)
        plt.rcParams['font.size'] = 10

    def _shade_peak(self, ax, config: Optional[SimulationConfig]):
        if config is not None:
            ax.axvspan(config.peak_start_day, config.peak_end_day, color='grey', alpha=0.15, label='Peak season')

    def plot_demand(self, results: SimulationResults, config: SimulationConfig = None) -> Dict[str, str]:
        """
        Plot the mean daily and cumulative trips per queue.

        Parameters:
        -----------
        results : SimulationResults
            Output of a simulation run.
        config : SimulationConfig
            Used to shade the peak season when given.

        Returns:
        --------
        Dict[str, str]
            Paths of the written images.
        """
        days = np.arange(results.n_days)
        daily = results.mean_daily().to_numpy()
        cumulative = np.cumsum(daily, axis=0)

        fig, axes = plt.subplots(2, 1, figsize=(14, 10), sharex=True)
        title = 'Ferry Demand'
        if config is not None:
            title += f' (corridor {config.corridor.name}, p_bike_if_path={config.p_bike_if_path})'
        fig.suptitle(title, fontsize=16, fontweight='bold')

        for key in QueueKey:
            axes[0].plot(days, daily[:, key], label=QUEUE_COLUMNS[key], color=COLORS[key], linewidth=1)
            axes[1].plot(days, cumulative[:, key], label=QUEUE_COLUMNS[key], color=COLORS[key], linewidth=2)
        self._shade_peak(axes[0], config)
        self._shade_peak(axes[1], config)

        axes[0].set_ylabel('Agents boarded per day')
        axes[0].set_title(f'Daily Trips (mean of {results.n_iterations} iteration(s))')
        axes[0].legend()
        axes[0].grid(True, alpha=0.3)

        axes[1].set_xlabel('Day of year')
        axes[1].set_ylabel('Agents boarded')
        axes[1].set_title('Cumulative Trips')
        axes[1].legend()
        axes[1].grid(True, alpha=0.3)

        paths = {'demand': os.path.join(self.plots_dir, 'ferry_demand.png')}
        plt.tight_layout()
        plt.savefig(paths['demand'], dpi=150, bbox_inches='tight')
        plt.close()

        fig, axes = plt.subplots(1, 2, figsize=(15, 6))
        fig.suptitle('Queues and Balking', fontsize=16, fontweight='bold')
        queue_lengths = results.queue_lengths.mean(axis=0)
        balked = results.balked.mean(axis=0)
        for key in QueueKey:
            axes[0].plot(days, queue_lengths[:, key], label=QUEUE_COLUMNS[key], color=COLORS[key])
            axes[1].plot(days, balked[:, key], label=QUEUE_COLUMNS[key], color=COLORS[key])
        axes[0].set_xlabel('Day of year')
        axes[0].set_ylabel('Agents waiting at end of day')
        axes[0].set_title('Queue Lengths')
        axes[0].legend()
        axes[0].grid(True, alpha=0.3)
        axes[1].set_xlabel('Day of year')
        axes[1].set_ylabel('Agents balking per day')
        axes[1].set_title('Balking')
        axes[1].legend()
        axes[1].grid(True, alpha=0.3)

        paths['queues'] = os.path.join(self.plots_dir, 'ferry_queues.png')
        plt.tight_layout()
        plt.savefig(paths['queues'], dpi=150, bbox_inches='tight')
        plt.close()

        logger.info(f"Saved plots to {self.plots_dir}")
        return paths
