# constants.py

GRADES = list(range(1, 14))
SUBJECTS = ['Math', 'Language Arts', 'Science', 'Social Studies', 'Art']

# Sort options understood by the session store's filtered view.
SESSION_SORT_OPTIONS = ('newest', 'likes', 'plays')

# Sort options understood by the public explore listing.
EXPLORE_SORT_OPTIONS = ('newest', 'mostLiked', 'mostPlayed', 'trending')

ALL = 'All'

SIMPLE_ADDITION_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Simple Addition</title>
    <style>
        body { font-family: sans-serif; display: flex; justify-content: center; align-items: center; height: 100vh; margin: 0; background-color: #f0f7ff; }
        .container { text-align: center; background: white; padding: 40px; border-radius: 12px; box-shadow: 0 8px 20px rgba(0,0,0,0.1); width: 90%; max-width: 400px; }
        #problem { font-size: 2.5rem; margin: 20px 0; }
        input { font-size: 1.5rem; padding: 10px; text-align: center; width: 100px; }
        button { font-size: 1.2rem; padding: 10px 20px; background-color: #007bff; color: white; border: none; border-radius: 8px; }
        .correct { color: #28a745; } .incorrect { color: #dc3545; }
    </style>
</head>
<body>
    <div class="container">
        <h1>Addition Challenge!</h1>
        <div id="problem"></div>
        <input type="number" id="answer" autofocus />
        <button id="submit">Check</button>
        <div id="feedback"></div>
    </div>
    <script>
        let correctAnswer;
        const problemEl = document.getElementById('problem');
        const answerEl = document.getElementById('answer');
        const feedbackEl = document.getElementById('feedback');
        function generateProblem() {
            const a = Math.floor(Math.random() * 10) + 1;
            const b = Math.floor(Math.random() * 10) + 1;
            correctAnswer = a + b;
            problemEl.textContent = a + ' + ' + b + ' = ?';
            answerEl.value = '';
            feedbackEl.textContent = '';
        }
        function checkAnswer() {
            if (parseInt(answerEl.value, 10) === correctAnswer) {
                feedbackEl.textContent = 'Correct! Well done!';
                feedbackEl.className = 'correct';
                setTimeout(generateProblem, 1500);
            } else {
                feedbackEl.textContent = 'Not quite. Try again!';
                feedbackEl.className = 'incorrect';
            }
        }
        document.getElementById('submit').addEventListener('click', checkAnswer);
        answerEl.addEventListener('keyup', (e) => { if (e.key === 'Enter') checkAnswer(); });
        generateProblem();
    </script>
</body>
</html>
"""

WORD_SCRAMBLE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Spelling Bee</title>
    <style>
        body { font-family: sans-serif; display: flex; justify-content: center; align-items: center; height: 100vh; margin: 0; background-color: #fffbe6; }
        .container { text-align: center; background: white; padding: 40px; border-radius: 12px; width: 90%; max-width: 450px; }
        #scrambled { font-size: 3rem; letter-spacing: 10px; margin: 20px 0; font-weight: bold; }
        input { font-size: 1.5rem; padding: 10px; text-align: center; width: 80%; }
        button { font-size: 1.2rem; padding: 10px 20px; background-color: #ffc107; border: none; border-radius: 8px; }
    </style>
</head>
<body>
    <div class="container">
        <h1>Unscramble the word!</h1>
        <div id="scrambled"></div>
        <input type="text" id="guess" autofocus />
        <button id="submit">Guess</button>
        <div id="feedback"></div>
    </div>
    <script>
        const words = ['APPLE', 'BEACH', 'CHAIR', 'DREAM', 'EARTH', 'FLOWER', 'GRAPE', 'HAPPY', 'IGLOO'];
        let current = '';
        const scrambledEl = document.getElementById('scrambled');
        const guessEl = document.getElementById('guess');
        const feedbackEl = document.getElementById('feedback');
        function scramble(word) {
            const arr = word.split('');
            for (let i = arr.length - 1; i > 0; i--) {
                const j = Math.floor(Math.random() * (i + 1));
                [arr[i], arr[j]] = [arr[j], arr[i]];
            }
            return arr.join('');
        }
        function newWord() {
            current = words[Math.floor(Math.random() * words.length)];
            let s = scramble(current);
            while (s === current) { s = scramble(current); }
            scrambledEl.textContent = s;
            guessEl.value = '';
            feedbackEl.textContent = '';
        }
        function checkGuess() {
            if (guessEl.value.toUpperCase() === current) {
                feedbackEl.textContent = 'You got it!';
                setTimeout(newWord, 1500);
            } else {
                feedbackEl.textContent = 'Try again!';
            }
        }
        document.getElementById('submit').addEventListener('click', checkGuess);
        guessEl.addEventListener('keyup', (e) => { if (e.key === 'Enter') checkGuess(); });
        newWord();
    </script>
</body>
</html>
"""

# Built-in games every fresh (or logged-out) session starts with.
SAMPLE_GAMES = [
    {
        'id': 'math-add-1',
        'title': 'Simple Addition',
        'description': 'A fun game to practice basic addition skills.',
        'grade': 1,
        'subject': 'Math',
        'htmlContent': SIMPLE_ADDITION_HTML,
    },
    {
        'id': 'lang-spell-1',
        'title': 'Spelling Bee',
        'description': 'Unscramble the letters to form a word.',
        'grade': 2,
        'subject': 'Language Arts',
        'htmlContent': WORD_SCRAMBLE_HTML,
    },
]
