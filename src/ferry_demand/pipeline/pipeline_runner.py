"""
Main pipeline runner for orchestrating the ferry demand simulation.
"""

import os
import sys
import yaml
import logging
import time
from dataclasses import fields
from datetime import datetime
from typing import Any, Callable, Dict

from ..core.data_models import Corridor, SimulationConfig
from ..core.exceptions import ConfigurationError
from ..core.simulation_engine import SimulationEngine
from .results_plotter import ResultsPlotter


DEFAULT_CONFIG = {
    'simulation': {
        'corridor': 'none',
        'p_bike_if_path': 0.1,
        'p_always_bike': 0.01,
        'n_iterations': 1,
        'seed': 42,
        'n_workers': 1,
    },
    'model': {},
    'output': {
        'directory': 'output',
        'summary': True,
        'debug': False,
        'cumulative': False,
        'plots': True,
    },
}


def build_config(config: Dict[str, Any]) -> SimulationConfig:
    """
    Create a SimulationConfig from the `simulation` and `model` sections.

    Raises:
    -------
    ConfigurationError
        On unknown keys or out-of-range values.
    """
    values = dict(config.get('simulation', {}) or {})
    values.update(config.get('model', {}) or {})

    known = {f.name for f in fields(SimulationConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {unknown}")

    sim_config = SimulationConfig(**values)
    sim_config.validate()
    return sim_config


def prompt_for_parameters(input_fn: Callable[[str], str] = input,
                          output_fn: Callable[[str], None] = print) -> Dict[str, Any]:
    """
    Interactively collect the three policy inputs, re-prompting until valid.

    Returns:
    --------
    Dict[str, Any]
        `corridor`, `p_bike_if_path` and `n_iterations`.
    """
    corridor = None
    answer = input_fn("How long does the bike path extend? Enter 'n' for no path, "
                      "'r' for Roberts Creek, and 's' for Sechelt: ")
    while corridor is None:
        try:
            corridor = Corridor.parse(answer)
        except ConfigurationError:
            answer = input_fn("Enter 'n' for no path, 'r' for Roberts Creek, and 's' for Sechelt: ")

    p_bike_if_path = None
    answer = input_fn("What proportion of people are willing to bike if there is an available path? "
                      "Enter the proportion as a decimal: ")
    while p_bike_if_path is None:
        try:
            value = float(answer)
            if not 0.0 <= value <= 1.0:
                raise ValueError(value)
            p_bike_if_path = value
        except ValueError:
            output_fn("The proportion of people willing to bike must be a number between 0 and 1, "
                      "expressed as a decimal.")
            answer = input_fn("Enter the proportion again: ")

    n_iterations = None
    answer = input_fn("How many times to run the model, for later averaging purposes? "
                      "(Must be an integer, max 100): ")
    while n_iterations is None:
        try:
            value = int(answer)
            if not 1 <= value <= 100:
                raise ValueError(value)
            n_iterations = value
        except ValueError:
            answer = input_fn("The number of iterations must be an integer between 1 and 100: ")

    return {
        'corridor': corridor.name.lower(),
        'p_bike_if_path': p_bike_if_path,
        'n_iterations': n_iterations,
    }


class SimulationPipeline:
    """
    Main pipeline orchestrator for running the ferry demand simulation.
    """

    def __init__(self, config_path: str = None, overrides: Dict[str, Any] = None):
        """
        Initialize the pipeline.

        Parameters:
        -----------
        config_path : str
            Path to the configuration file.
        overrides : Dict[str, Any]
            Section -> {key: value} entries applied on top of the file.
        """
        self.config_path = config_path or "config/simulation_config.yaml"
        self.config = self._load_config()
        for section, values in (overrides or {}).items():
            self.config.setdefault(section, {})
            self.config[section] = dict(self.config[section] or {})
            self.config[section].update({k: v for k, v in values.items() if v is not None})
        self.logger = self._setup_logging()

        # Initialize results storage
        self.sim_config = None
        self.engine = None
        self.results = {}

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        try:
            with open(self.config_path, 'r') as file:
                config = yaml.safe_load(file) or {}
        except (OSError, yaml.YAMLError) as e:
            print(f"Error loading config: {str(e)}")
            print("Using default configuration")
            config = {}

        merged = {section: dict(values) for section, values in DEFAULT_CONFIG.items()}
        for section, values in config.items():
            merged.setdefault(section, {})
            merged[section].update(values or {})
        return merged

    def _setup_logging(self) -> logging.Logger:
        """Set up logging configuration."""
        output_dir = self.config.get('output', {}).get('directory', 'output')
        os.makedirs(output_dir, exist_ok=True)

        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        log_level = logging.DEBUG if self.config.get('output', {}).get('debug', False) else logging.INFO

        log_file = os.path.join(output_dir, f'simulation_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')

        logging.basicConfig(
            level=log_level,
            format=log_format,
            handlers=[
                logging.FileHandler(log_file),
                logging.StreamHandler(sys.stdout)
            ]
        )

        logger = logging.getLogger('SimulationPipeline')
        logger.info(f"Logging initialized. Log file: {log_file}")

        return logger

    def validate_inputs(self) -> bool:
        """
        Validate configuration.

        Returns:
        --------
        bool
            True if validation passes, False otherwise.
        """
        self.logger.info("Starting input validation...")

        try:
            self.sim_config = build_config(self.config)
        except (ConfigurationError, TypeError) as e:
            self.logger.error(f"Invalid configuration: {str(e)}")
            return False

        agents = sum(self.sim_config.agent_counts().values())
        if agents > 2_000_000:
            self.logger.warning(f"Large population: {agents} agents per iteration")

        self.logger.info(f"Corridor: {self.sim_config.corridor.name}, "
                         f"p_bike_if_path: {self.sim_config.p_bike_if_path}, "
                         f"iterations: {self.sim_config.n_iterations}")
        self.logger.info("Input validation completed successfully")
        return True

    def run_simulation(self) -> bool:
        """
        Run the main simulation.

        Returns:
        --------
        bool
            True if simulation completes successfully, False otherwise.
        """
        self.logger.info("Starting simulation...")

        try:
            self.engine = SimulationEngine(self.sim_config)

            self.logger.info("Building population...")
            population = self.engine.setup_simulation()
            self.logger.info(f"Built {len(population)} agents")

            self.logger.info("Running simulation...")
            results = self.engine.run_simulation()

            output_config = self.config.get('output', {})
            output_dir = output_config.get('directory', 'output')
            self.logger.info(f"Exporting results to {output_dir}...")
            paths = self.engine.export_results(output_dir, cumulative=output_config.get('cumulative', False))

            self.results = {
                'iterations': results.n_iterations,
                'days': results.n_days,
                'output_files': paths,
                'output_directory': output_dir,
            }

            if output_config.get('plots', True):
                self.logger.info("Generating plots...")
                paths.update(ResultsPlotter(output_dir).plot_demand(results, self.sim_config))

            if output_config.get('summary', True):
                self.results['summary'] = self.engine.get_summary_statistics()
                self.logger.info("Summary statistics generated")

            return True

        except Exception as e:
            self.logger.error(f"Simulation error: {str(e)}")
            import traceback
            self.logger.error(traceback.format_exc())
            return False

    def run_pipeline(self) -> Dict[str, Any]:
        """
        Run the complete pipeline.

        Returns:
        --------
        Dict[str, Any]
            Pipeline results and metadata.
        """
        pipeline_start_time = time.time()
        self.logger.info("="*60)
        self.logger.info(" Ferry Demand Simulation Pipeline ".center(60, "="))
        self.logger.info("="*60)

        # Stage 1: Validate inputs
        self.logger.info("Stage 1: Input Validation")
        if not self.validate_inputs():
            return {
                'success': False,
                'stage': 'validation',
                'error': 'Input validation failed',
                'duration_seconds': time.time() - pipeline_start_time
            }

        # Stage 2: Run simulation
        self.logger.info("Stage 2: Simulation Execution")
        if not self.run_simulation():
            return {
                'success': False,
                'stage': 'simulation',
                'error': 'Simulation execution failed',
                'duration_seconds': time.time() - pipeline_start_time
            }

        pipeline_duration = time.time() - pipeline_start_time

        self.logger.info("="*60)
        self.logger.info("Pipeline completed successfully!")
        self.logger.info(f"Total duration: {pipeline_duration:.2f} seconds")
        self.logger.info("="*60)

        return {
            'success': True,
            'duration_seconds': pipeline_duration,
            'results': self.results,
            'config': self.config,
            'timestamp': datetime.now().isoformat()
        }


def print_summary(summary: Dict[str, Any]) -> None:
    """Print the headline numbers of a run."""
    print("\nSummary Statistics:")
    print(f"  Corridor: {summary['corridor']}  (p_bike_if_path={summary['p_bike_if_path']})")
    print(f"  Iterations: {summary['n_iterations']}  Agents: {summary['n_agents']}")
    for column in ('car_outbound', 'bike_outbound', 'car_return', 'bike_return'):
        print(f"  {column:>14}: {summary[f'mean_total_{column}']:.1f} trips/year, "
              f"peak {summary[f'mean_daily_{column}_peak']:.1f}/day, "
              f"off-peak {summary[f'mean_daily_{column}_off_peak']:.1f}/day, "
              f"max queue {summary[f'max_{column}_queue']}")
    print(f"  Bike mode share: {summary['bike_mode_share']:.2%}")


def main():
    """Main function for running the pipeline."""
    import argparse

    parser = argparse.ArgumentParser(description='Run the Sunshine Coast ferry demand simulation')
    parser.add_argument('--config', type=str, default='config/simulation_config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--corridor', type=str,
                        help="Bike corridor extent: 'none', 'roberts_creek' or 'sechelt'")
    parser.add_argument('--p-bike-if-path', type=float,
                        help='Proportion of agents who bike if a path is available')
    parser.add_argument('--iterations', type=int,
                        help='Number of independent yearly runs (1-100)')
    parser.add_argument('--seed', type=int, help='Random seed for reproducibility')
    parser.add_argument('--workers', type=int, help='Worker processes for iterations')
    parser.add_argument('--output-dir', type=str, help='Directory to save output files')
    parser.add_argument('--interactive', action='store_true',
                        help='Prompt for the corridor, bike willingness and iteration count')
    parser.add_argument('--no-plots', action='store_true', help='Skip saving charts')
    parser.add_argument('--debug', action='store_true', help='Enable debug output')

    args = parser.parse_args()

    simulation = {
        'corridor': args.corridor,
        'p_bike_if_path': args.p_bike_if_path,
        'n_iterations': args.iterations,
        'seed': args.seed,
        'n_workers': args.workers,
    }
    if args.interactive:
        simulation.update(prompt_for_parameters())

    overrides = {
        'simulation': simulation,
        'output': {
            'directory': args.output_dir,
            'debug': True if args.debug else None,
            'plots': False if args.no_plots else None,
        },
    }

    pipeline = SimulationPipeline(config_path=args.config, overrides=overrides)
    results = pipeline.run_pipeline()

    if results['success']:
        if 'summary' in results['results']:
            print_summary(results['results']['summary'])
        print(f"Pipeline completed successfully in {results['duration_seconds']:.2f} seconds")
        sys.exit(0)
    else:
        print(f"Pipeline failed at stage '{results['stage']}': {results['error']}")
        sys.exit(1)


if __name__ == "__main__":
    main()
