"""Management command to run a scripted participant through a full Stroop session."""
import logging
import random
from dataclasses import replace

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.core.management.base import CommandError

from promptstudy.stroop.helpers.clock import VirtualScheduler
from promptstudy.stroop.helpers.machine import StroopConfig
from promptstudy.stroop.helpers.machine import StroopSessionMachine
from promptstudy.stroop.helpers.simulation import ParticipantProfile
from promptstudy.stroop.helpers.simulation import SimulatedParticipant
from promptstudy.stroop.helpers.store import DjangoTrialStore
from promptstudy.stroop.helpers.store import create_run
from promptstudy.stroop.helpers.store import finish_run

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Simulate a participant completing a Stroop session and store the trials."

    def add_arguments(self, parser):
        parser.add_argument("--user", required=True, help="Username the run is recorded against.")
        parser.add_argument("--trials", type=int, default=40, help="Number of trials to run.")
        parser.add_argument("--seed", default=None, help="Seed for stimuli and participant behaviour.")
        parser.add_argument("--accuracy", type=float, default=0.9)
        parser.add_argument("--miss-rate", type=float, default=0.05)
        parser.add_argument("--rt-mean", type=float, default=650.0, help="Mean reaction time in ms.")
        parser.add_argument("--interference", type=float, default=90.0, help="Extra ms on inconsistent trials.")

    def handle(self, *args, **options):
        User = get_user_model()
        try:
            user = User.objects.get(username=options["user"])
        except User.DoesNotExist:
            raise CommandError(f"No user named '{options['user']}'")

        if options["trials"] < 1:
            raise CommandError("--trials must be at least 1")

        try:
            config = replace(StroopConfig.from_settings(), max_trials=options["trials"])
            profile = ParticipantProfile(
                accuracy=options["accuracy"],
                miss_rate=options["miss_rate"],
                rt_mean_ms=options["rt_mean"],
                interference_ms=options["interference"],
            )
        except ValueError as exc:
            raise CommandError(str(exc))

        run = create_run(user, config=config, seed=options["seed"])
        rng = random.Random(run.random_seed)
        scheduler = VirtualScheduler()
        machine = StroopSessionMachine(
            DjangoTrialStore(run),
            user_id=user.pk,
            session_id=run.id,
            scheduler=scheduler,
            config=config,
            rng=rng,
        )
        SimulatedParticipant(profile, rng=random.Random(f"{run.random_seed}:participant")).attach(machine)

        self.stdout.write(f"Simulating {config.max_trials} trials for {user}…")
        machine.start()
        scheduler.run()
        run = finish_run(run)
        logger.info("simulate_stroop: run %s finished with %d trials", run.id, run.total_trials)

        summary = run.summary_metrics
        self.stdout.write(
            f"Accuracy {summary['overall_accuracy']!r}, interference {summary['interference_effect_ms']!r} ms"
        )
        self.stdout.write(self.style.SUCCESS(f"Done: run {run.id} with {run.total_trials} trial(s)."))
